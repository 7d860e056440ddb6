from idmigrate.cli import main

raise SystemExit(main())
