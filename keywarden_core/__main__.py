from keywarden_core.cli import main

main()
