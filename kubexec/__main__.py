from kubexec.cli import main

main()
