# shopdesk/modules/referrals/__init__.py

from .rewards import ReferralEngine, generate_referral_code, referral_stats

__all__ = ["ReferralEngine", "generate_referral_code", "referral_stats"]
