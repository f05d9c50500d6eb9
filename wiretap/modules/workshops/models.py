# Supabase table: workshops
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:
- id: uuid (primary key)
- name: text (not null, unique)
- description: text (nullable)
- provider_id: uuid (foreign key to providers.id, not null, on delete cascade)
- openstack_project_id: text (nullable) - used directly when set, else resolved from the name
- openstack_project_name: text (not null) - project scope for tokens and instance listing
- enabled: boolean (default: true)
- lockout_start: timestamp (nullable) - console access allowed from here
- lockout_end: timestamp (nullable) - console access denied from here on
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
"""
