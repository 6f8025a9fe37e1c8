from leadsync.cli import main

raise SystemExit(main())
