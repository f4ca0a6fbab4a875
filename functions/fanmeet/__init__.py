"""
FanMeet server-side functions.

Auction finalization, the meeting lifecycle (start, join, no-show cancellation,
completion), wallet refunds and earnings, creator payouts, cloud recording
control and admin impersonation, served as a FastAPI app and as cron scripts.
"""
