"""Application services: workflow operations, profile edits and ledger posting."""
