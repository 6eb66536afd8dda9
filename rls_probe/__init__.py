"""rls-probe: infer Supabase row-level-security posture through the anonymous REST API."""

__version__ = "0.1.0"
