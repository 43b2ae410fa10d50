"""Reward and XP models."""

from questline.database.models.economy.reward_claim import RewardClaim
from questline.database.models.economy.xp import XPAccount, XPGrant

__all__ = ["RewardClaim", "XPAccount", "XPGrant"]
