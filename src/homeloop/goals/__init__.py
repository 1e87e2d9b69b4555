"""
Contribution goals.

Components:
- goal_models.py: ContributionGoal, Deduction, week helpers (weeks start on Sunday)
- goal_store.py: SQLite-backed storage
- goal_api.py: create a goal, record a deduction
- settlement.py: ContributionSettlementRunner (weekly payout)
"""
