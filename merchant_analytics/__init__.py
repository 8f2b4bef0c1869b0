"""
Merchant Analytics Core

Aggregation service for merchant dashboards: KPIs, revenue series,
channel/segment breakdowns, cohorts and churn scoring.
"""

__version__ = "1.0.0"
