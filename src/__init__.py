# Order Notifier - Warehouse Sheet to WhatsApp Pipeline
# =====================================================
# Reads warehouse spreadsheets, finds orders whose clients have not been
# notified yet, sends one WhatsApp message per client and records every
# notified tracking number so it is never sent twice.
#
# ARCHITECTURE LAYERS:
# - Presentation:   FastAPI JSON API and CLI entry point
# - Application:    Use cases and orchestration (no business rules)
# - Domain:         Pure business logic (no external dependencies)
# - Infrastructure: External services (Google Sheets, Green API, SQLite, webhook)
#
# Infrastructure components sit behind small interfaces
# (e.g., swap Google Sheets for a local workbook, or Green API for a dry run).
