"""
Services layer - Business logic goes here.
Keep services focused on specific domains (reports, votes, alerts, storage).

DESIGN PRINCIPLE:
- Services contain business logic, NOT routes
- Scoring rules (trust_score, verification, danger_weights) are pure and never touch the database
- Anything that changes a report's trust inputs rescores it in the same write
- Admin verification is the only human override
"""
