from fipcontroller.cli import main

main()
