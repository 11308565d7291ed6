"""HTTP surface of the launchpad indexer."""
