from jabterm.cli import main

main()
