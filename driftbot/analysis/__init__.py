"""Local drift analysis: diff scanning, rules, and result presentation."""
