"""FeedCrank - batch Switchboard on-demand feed updates in one Solana transaction."""

__version__ = "0.1.0"
