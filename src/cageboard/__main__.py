from cageboard.cli import main

main()
