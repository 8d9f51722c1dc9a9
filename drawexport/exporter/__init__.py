"""
Exporter App - Resumable Drawing PDF Export

Responsibilities:
- Scheduled or RUN_ONCE execution (APScheduler cron)
- Resumable pagination over the company revision feed (watermark + offset
  persisted in lastexport.json after every page)
- Per-revision skip rules: previously bad, non-drawing, missing document
- Drawing to PDF translation: submit, poll, download
- Permanent bad-revision records for failed or timed out translations

Output:
- <exportDir>/<partNumber>_<revision>.pdf
- <exportDir>/lastexport.json
"""
