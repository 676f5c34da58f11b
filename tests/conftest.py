"""Shared fixtures: a small organization of workers with varied attribute shapes."""

import pytest


@pytest.fixture
def workers():
    return {
        "w1": {
            "firstName": "Amina",
            "gender": "female",
            "isActive": True,
            "tags": ["mentor", "Core_Team"],
            "dateOfBirth": "1990-04-12",
            "employment": {
                "employmentStatus": "active",
                "department": "Field Operations",
                "hireDate": "2021-03-01",
            },
            "engagement": {"engagementRate": 72},
            "contact": {"whatsappOptInStatus": "opted_in", "locationCountry": "Kenya"},
            "customFields": {"shirtSize": "M"},
        },
        "w2": {
            "firstName": "Brian",
            "gender": "male",
            "isActive": "false",
            "tags": [],
            "employment": {
                "employmentStatus": "terminated",
                "department": "Finance",
                "hireDate": "2019-11-20T08:00:00",
            },
            "engagement": {"engagementRate": "35.5"},
            "contact": {"whatsappOptInStatus": "opted_out"},
        },
        "w3": {
            "firstName": "",
            "gender": "non_binary",
            "tags": ["volunteer"],
            "employment": {"employmentStatus": "on_leave", "hireDate": "not a date"},
            "engagement": {"engagementRate": "n/a"},
            "contact": {"whatsappOptInStatus": "pending"},
            "customFields": {},
        },
        "w4": {
            "employment.employmentStatus": "active",
            "engagement.engagementRate": 50,
            "isActive": 1,
            "tags": "mentor",
        },
        "w5": {},
    }
