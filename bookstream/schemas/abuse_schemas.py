"""Abuse-prevention reporting schemas (admin)"""
from typing import List

from pydantic import BaseModel


class IpAttemptCount(BaseModel):
    ip: str
    attempts: int


class DomainTrialCount(BaseModel):
    domain: str
    trials: int


class AbuseStatistics(BaseModel):
    window_days: int
    total_signup_attempts: int
    blocked_attempts: int
    free_trials_started: int
    active_ip_blocks: int
    top_abusive_ips: List[IpAttemptCount]
    top_trial_domains: List[DomainTrialCount]


class CleanupResponse(BaseModel):
    deleted: int
    retention_days: int
