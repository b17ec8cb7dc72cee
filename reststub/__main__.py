from reststub.cli.main import main


main()
