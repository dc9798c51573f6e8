from autorebase.cli import main

main()
