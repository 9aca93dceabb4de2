"""
Prospect Dashboard Services

Business logic of the dashboard backend. Routers call into these modules;
none of them knows about HTTP.

Merge engine:
- identity: identity keys of raw records
- grouping: calendar-month windowing of one key's events into periods
- reconcile: field-by-field merge of a period into one entity
- aggregation: household-level category counts

Daily conversations:
- snapshots: daily snapshot repository, summaries, runs, admin operations
- conversations: ingestion, snapshot repair and household views
- state_machine: processing status transitions
- classifier: LLM classification of one conversation
- processing: one processing batch under lock and time budget

Sales and P&L:
- ingestion: CSV / JSON upload parsing
- overseas_sales: OEC to-do deduplication
- complaints: complaint-to-service mapping and sale deduplication
- payments: payment normalization and the per-date conversions view
- pnl: P&L configuration and statement

Modules are imported directly (``from prospect_dashboard.services import
grouping``); nothing is re-exported here.
"""
