"""MedSecure: hospital authorization core with remote policy engine and local fallback."""
