"""
ZIMMR Backend — Services Layer
===============================

Business services (take an AsyncSession, raise ZimmrError subclasses):
    - AuthService, CraftsmanService, CustomerService, SpaceService
    - AppointmentService: booking, approval workflow, completion
    - MaterialService
    - InvoiceService: numbering, totals, quotes, delivery, overdue sweep
    - TimeEntryService, FinanceService

Side-effect services:
    - MailTransport (abstract) / SMTPMailer: retrying, circuit-broken SMTP
    - NotificationService: German email templates, fire-and-forget sends
    - PDFService: reportlab invoice/quote rendering
    - DocumentStorage: aiofiles writes under storage_root

Pure helpers:
    - time_tracking: durations, billable amounts, validation
    - formatting: German date and money formatting

Every service is a module-level singleton (e.g. `invoice_service`).
"""
