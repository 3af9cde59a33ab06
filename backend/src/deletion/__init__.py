"""Account and organization deletion: the purge primitive and the four deletion entry points."""
