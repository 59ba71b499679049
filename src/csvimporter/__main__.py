from csvimporter.ui.cli import main

raise SystemExit(main())
