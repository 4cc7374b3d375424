from shardchurn.cli import main

main()
