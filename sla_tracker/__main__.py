from sla_tracker.cli import main

raise SystemExit(main())
