from slide_mcp.cli import main

raise SystemExit(main())
