from booklog.cli import main

raise SystemExit(main())
