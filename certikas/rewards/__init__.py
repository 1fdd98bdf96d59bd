"""Certification rewards."""

from certikas.rewards.memory import DisabledRewards, InMemoryRewardLedger
from certikas.rewards.port import RewardPort, RewardReceipt, calculate_reward

__all__ = ["DisabledRewards", "InMemoryRewardLedger", "RewardPort", "RewardReceipt", "calculate_reward"]
