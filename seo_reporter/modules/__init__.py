"""Feature modules: accounts, data collection, reporting, tasks, delivery."""
