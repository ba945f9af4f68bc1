"""Query classification and cost-tier model routing."""
