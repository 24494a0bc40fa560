"""ARISE progression core: quests, XP ledger, levels, streaks and debuffs."""

__version__ = "1.0.0"
