"""
FeedCrank - Entrypoint
======================
    python main.py run
    python main.py run <FEED> ... --simulate-only
    python main.py one <FEED>
    python main.py config
"""

from feedcrank.cli import main


if __name__ == "__main__":
    main()
