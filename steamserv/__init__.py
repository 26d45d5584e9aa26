"""steamserv — manage SteamCMD dedicated game servers on a single Linux host."""

__version__ = "0.1.0"
