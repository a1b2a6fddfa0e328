from container_exporter.exporter import main

main()
