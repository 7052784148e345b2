from modhost.cli import main

raise SystemExit(main())
