"""SchoolBell — school reminders and week letters delivered to the family chat."""
