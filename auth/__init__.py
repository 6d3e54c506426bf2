"""auth/ -- Session lifecycle for the Plate console core.

Layer rule: auth/ imports from core/ (config, errors) and third-party
libraries. core/ never imports from auth/; the HTTP hook that joins them is
passed into core.fetcher.build_client() by the caller.
"""
