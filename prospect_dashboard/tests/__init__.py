'''
Prospect Dashboard Backend Test Suite

Test Modules:
-------------
- test_grouping.py: identity keys and the calendar-month window
  - Client > maid > conversation id precedence, deterministic fallback keys
  - Window boundary day and month-end anchors
  - Order-independent grouping

- test_reconcile.py: field reconciliation and household counting
  - First non-empty wins, text concatenation, set unions
  - Idempotent and commutative merges
  - One count per household and category

- test_state_machine.py: record status transitions and per-date locks
  - Retry limit and terminal states
  - Acquire-or-reject, lease expiry, owner-checked release

- test_dates.py: timestamp normalization and date strings
- test_conversations.py: daily ingestion, deduplication, views, admin
- test_store.py: memory and JSON file document stores
- test_processing.py: processing runs, bounded parallelism, time budget
- test_classifier.py: LLM classifier against a mocked HTTP transport
- test_sales.py: OEC sales, complaint sales and the P&L statement
- test_payments.py: payment normalization and the conversions view
- test_api.py: HTTP endpoints through TestClient

Running Tests:
--------------
    pip install -e ".[test]"
    pytest prospect_dashboard/tests -v

Configuration:
--------------
See conftest.py for shared fixtures and test configuration.
'''

# Package is empty by design - all tests are in individual modules
# This file enables pytest discovery of the tests directory

__all__ = []
