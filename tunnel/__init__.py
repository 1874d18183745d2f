"""HTTP-to-SQL tunnel used by the airport operations desktop app."""
