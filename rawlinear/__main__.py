from rawlinear.cli import main

main()
