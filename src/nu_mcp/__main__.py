from nu_mcp.cli import main

main()
