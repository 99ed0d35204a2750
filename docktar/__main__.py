from docktar.cli import main

raise SystemExit(main())
