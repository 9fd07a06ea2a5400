from xlsx_pipe import main

main()
