"""Teams, memberships, invitations and presence."""
