from admonitor.main import main

main()
