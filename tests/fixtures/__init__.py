# Shared fixtures and document builders for the agenda tests
