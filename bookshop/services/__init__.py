"""Read-side analytics plus the backup, restore and reorder pipelines."""
