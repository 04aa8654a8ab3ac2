from cxfeed.cli.main import main

main()
