# Supabase table: providers
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:
- id: uuid (primary key)
- name: text (not null, unique)
- description: text (nullable)
- auth_url: text (not null) - Keystone base URL without the version suffix
- identity_version: text (default: 'v3')
- username: text (not null)
- password: text (not null) - never returned by the API
- project_name: text (not null) - default scope for provider-level calls
- domain_name: text (default: 'Default')
- region_name: text (nullable) - falls back to OPENSTACK_DEFAULT_REGION
- proxy_through_host: text (nullable) - rewrite API hostnames to this host, keep Host header
- enabled: boolean (default: true)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
"""
