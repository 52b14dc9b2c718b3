"""Device Application Workflow Module.

This module tracks RTB device inventory and its allocation to schools:
- Schools submit device applications with a signed letter
- Staff review applications and set eligibility
- Approved applications are fulfilled from inventory, each device
  receiving a unique asset tag
- Schools confirm receipt

Architecture: Clean Architecture with Hexagonal (Ports & Adapters)
"""
