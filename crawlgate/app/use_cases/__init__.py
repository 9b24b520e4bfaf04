"""
Use Cases

Organized into domain folders:
- tenants/: Provisioning and tenant-owned settings
- crawls/: Crawl submission and cancellation
- admin/: Billing status changes and usage resets
- scaling/: Capacity re-planning
"""
