# Infrastructure Layer
# ====================
# Contains all external service integrations:
# - sheets/: Google Sheets API v4 and local workbook sources
# - whatsapp/: Green API messaging provider
# - webhook/: outbound order mirror
# - persistence/: SQLite tracking ledger
# - metrics/: Prometheus timings and counters
# - ratelimit/: inbound webhook rate limiting
# - config/: Environment and settings management
#
# This layer can be replaced entirely without affecting domain/application layers.
