"""Account administration for admins and superadmins: account list, role changes, audit log."""
