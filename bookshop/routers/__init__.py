"""HTTP routers. Each one is a thin layer over ``RecordStore`` and the services."""
