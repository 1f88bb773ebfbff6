from exshell.shell import main

main()
