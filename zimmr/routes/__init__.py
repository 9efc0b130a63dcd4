"""
ZIMMR Backend — API Routes Package
===================================

Route inventory:
    - auth.py:          /auth/register, /auth/login, /auth/me
    - craftsmen.py:     /craftsmen, profile, calendar, availability
    - customers.py:     /customers
    - spaces.py:        /spaces
    - appointments.py:  /appointments, approval workflow, completion
    - materials.py:     /materials
    - invoices.py:      /invoices, PDF, send, convert, complete-and-invoice
    - time_entries.py:  /time-entries, breaks, stats
    - finances.py:      /finances
    - health.py:        /health

Routes stay thin: parse the request, call one service method, schedule
notifications as background tasks. Business rules live in services.
"""
