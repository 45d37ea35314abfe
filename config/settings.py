import os
from dotenv import load_dotenv

# Load Environment Variables from project root .env
env_path = os.path.join(os.path.dirname(__file__), "../.env")
load_dotenv(env_path)


class Settings:
    # ═══════════════════════════════════════════════════════════════════
    # FEEDCRANK CONFIGURATION (Environment-Based)
    # ═══════════════════════════════════════════════════════════════════

    SILENT_MODE = os.getenv("CRANK_SILENT", "").lower() in ("1", "true", "yes")

    # Paths
    DATA_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "../data"))

    # ───────────────────────────────────────────────────────────────────
    # Endpoints
    # ───────────────────────────────────────────────────────────────────
    RPC_URL = os.getenv("RPC_URL", "https://api.mainnet-beta.solana.com")
    SWB_GATEWAY = os.getenv(
        "SWB_GATEWAY",
        "https://92.222.100.182.xip.switchboard-oracles.xyz/mainnet",
    )
    SWB_CROSSBAR = os.getenv("SWB_CROSSBAR", "https://crossbar.switchboard.xyz")
    SWB_NETWORK = os.getenv("SWB_NETWORK", "mainnet")
    RELAY_TIMEOUT_S = os.getenv("CRANK_RELAY_TIMEOUT", "10")
    RELAY_DEBUG = os.getenv("SWB_DEBUG", "").lower() in ("1", "true", "yes")

    # ───────────────────────────────────────────────────────────────────
    # Credential
    # ───────────────────────────────────────────────────────────────────
    KEYPAIR_PATH = os.getenv(
        "KEYPAIR",
        os.path.join(os.getenv("HOME", "."), "keys", "staging-deploy.json"),
    )
    SOLANA_PRIVATE_KEY = os.getenv("SOLANA_PRIVATE_KEY", "")

    # ───────────────────────────────────────────────────────────────────
    # Feeds
    # ───────────────────────────────────────────────────────────────────
    DEFAULT_FEEDS = [
        "4Hmd6PdjVA9auCoScE12iaBogfwS4ZXQ6VZoBeqanwWW",  # SOL
        "BWK8Wnybb7rPteNMqJs9uWoqdfYApNym6WgE59BwLe1v",  # LST
        "5htZ4vPKPjAEg8EJv6JHcaCetMM4XehZo8znQvrp6Ur3",  # JITOSOL
    ]
    FEEDS_ENV = os.getenv("CRANK_FEEDS", "")
    FEEDS_FILE = os.getenv("CRANK_FEEDS_FILE", "")

    # Oracle attestations required per feed update
    NUM_SIGNATURES = os.getenv("SWB_NUM_SIGNATURES", "1")

    # ───────────────────────────────────────────────────────────────────
    # Compute Budget Policy
    # ───────────────────────────────────────────────────────────────────
    PER_FEED_CU = os.getenv("CRANK_PER_FEED_CU", "300000")
    MIN_CU = os.getenv("CRANK_MIN_CU", "300000")
    MAX_CU = os.getenv("CRANK_MAX_CU", "1400000")  # Ledger hard per-tx limit
    CU_PRICE_MICRO_LAMPORTS = os.getenv("CRANK_CU_PRICE", "5000")

    # Single-feed variant
    SINGLE_FEED_CU = 1_200_000
    SINGLE_FEED_NUM_SIGNATURES = 8

    # Fan out relay requests instead of one-by-one
    CONCURRENT_FETCH = os.getenv("CRANK_CONCURRENT_FETCH", "").lower() in ("1", "true", "yes")

    @staticmethod
    def load_feeds():
        """
        Resolve the feed list.

        Priority: CRANK_FEEDS (comma separated) > CRANK_FEEDS_FILE (JSON) > defaults.
        The JSON file holds {"feeds": [{"pubkey": "...", "label": "SOL"}, ...]}.
        """
        import json
        from feedcrank.shared.execution.crank_result import ConfigurationError

        if Settings.FEEDS_ENV.strip():
            return [f.strip() for f in Settings.FEEDS_ENV.split(",") if f.strip()]

        if Settings.FEEDS_FILE:
            with open(Settings.FEEDS_FILE, "r") as f:
                data = json.load(f)
            entries = data.get("feeds", []) if isinstance(data, dict) else None
            if not isinstance(entries, list):
                raise ConfigurationError(
                    f'{Settings.FEEDS_FILE}: expected {{"feeds": [...]}}, got {type(data).__name__}'
                )
            feeds = []
            for entry in entries:
                if isinstance(entry, str):
                    feeds.append(entry)
                elif isinstance(entry, dict):
                    feeds.append(entry.get("pubkey", ""))
                else:
                    raise ConfigurationError(f"{Settings.FEEDS_FILE}: invalid feed entry {entry!r}")
            return feeds

        return list(Settings.DEFAULT_FEEDS)
