"""
IPO Allotment Checker

Bulk allotment-status checks for a list of BOIDs against the CDSC IPO result
form, driven through a script-injectable browser surface.

Packages:
- core: models, result classifier, manual captcha broker, session controller
- browser: automation scripts, message bridge, Playwright rendering surface
- api: configuration, logging, captcha recognition client, caller-facing service
"""

__version__ = "0.3.0"
