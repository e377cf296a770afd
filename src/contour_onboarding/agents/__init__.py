"""Model-backed roles: the interviewer gateway, the intel analyst and the pre-meeting writer."""
