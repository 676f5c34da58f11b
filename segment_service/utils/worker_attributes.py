"""
Worker attributes available to segment conditions.

Keys are dot paths into a worker record. Entries with "options" have a closed
value domain; "control" is a rendering hint passed through to the UI.
"""

_DEPARTMENTS = [
    "Program Management", "Field Operations", "Community Outreach", "Fundraising",
    "Donor Relations", "Grants Management", "Monitoring and Evaluation", "Advocacy",
    "Communications", "Finance", "Human Resources", "Administration", "IT",
    "Volunteer Coordination", "Research",
]

_JOB_TITLES = [
    "Program Manager", "Project Coordinator", "Field Officer", "Community Mobilizer",
    "Fundraising Manager", "Grant Writer", "M&E Officer", "Advocacy Officer",
    "Communications Officer", "Social Media Coordinator", "Volunteer Coordinator",
    "Counselor", "Social Worker", "Director", "Executive Director", "Board Member",
    "Researcher", "Trainer", "Consultant",
]

_SCORE_SLIDER = {"type": "slider", "min": 0, "max": 100, "step": 1}

SUPPORTED_ATTRIBUTES = {
    # Base attributes
    "firstName": {"label": "First Name", "type": "string"},
    "lastName": {"label": "Last Name", "type": "string"},
    "fullName": {"label": "Full Name", "type": "string"},
    "externalId": {"label": "Worker ID", "type": "string"},
    "gender": {
        "label": "Gender",
        "type": "enum",
        "options": [
            ("male", "Male"),
            ("female", "Female"),
            ("non_binary", "Non-binary"),
            ("other", "Other"),
            ("prefer_not_say", "Prefer not to say"),
        ],
    },
    "isActive": {"label": "Active Status", "type": "boolean"},
    "tags": {
        "label": "Tags",
        "type": "array",
        "options": [
            ("high_performer", "High Performer"),
            ("leadership_potential", "Leadership Potential"),
            ("field_worker", "Field Worker"),
            ("new_joiner", "New Joiner"),
            ("mentor", "Mentor"),
            ("core_team", "Core Team"),
            ("volunteer", "Volunteer"),
            ("community_leader", "Community Leader"),
        ],
        "control": {"type": "multi-select"},
    },
    "dateOfBirth": {"label": "Date of Birth", "type": "date"},
    "customFields": {"label": "Custom Fields", "type": "object"},
    "deactivationReason": {
        "label": "Deactivation Reason",
        "type": "enum",
        "options": [
            ("voluntary_resignation", "Voluntary Resignation"),
            ("performance_issues", "Performance Issues"),
            ("policy_violation", "Policy Violation"),
            ("redundancy", "Redundancy"),
            ("retirement", "Retirement"),
            ("end_of_contract", "End of Contract"),
            ("other", "Other"),
        ],
    },
    "supervisorId": {"label": "Supervisor ID", "type": "string"},

    # Employment attributes
    "employment.jobTitle": {
        "label": "Job Title",
        "type": "string",
        "options": [(t, t) for t in _JOB_TITLES],
    },
    "employment.department": {
        "label": "Department",
        "type": "string",
        "options": [(d, d) for d in _DEPARTMENTS],
    },
    "employment.team": {"label": "Team", "type": "string"},
    "employment.hireDate": {"label": "Hire Date", "type": "date"},
    "employment.employmentStatus": {
        "label": "Employment Status",
        "type": "enum",
        "options": [
            ("active", "Active"),
            ("inactive", "Inactive"),
            ("on_leave", "On Leave"),
            ("terminated", "Terminated"),
        ],
    },
    "employment.employmentType": {
        "label": "Employment Type",
        "type": "enum",
        "options": [
            ("full_time", "Full Time"),
            ("part_time", "Part Time"),
            ("contractor", "Contractor"),
            ("volunteer", "Volunteer"),
            ("intern", "Intern"),
            ("fellow", "Fellow"),
        ],
    },

    # Contact attributes
    "contact.primaryPhoneNumber": {"label": "Phone Number", "type": "string"},
    "contact.emailAddress": {"label": "Email Address", "type": "string"},
    "contact.locationCity": {"label": "City", "type": "string"},
    "contact.locationStateProvince": {
        "label": "State/Province",
        "type": "enum",
        "options": [
            ("AP", "Andhra Pradesh"), ("AR", "Arunachal Pradesh"), ("AS", "Assam"),
            ("BR", "Bihar"), ("CT", "Chhattisgarh"), ("GA", "Goa"), ("GJ", "Gujarat"),
            ("HR", "Haryana"), ("HP", "Himachal Pradesh"), ("JH", "Jharkhand"),
            ("KA", "Karnataka"), ("KL", "Kerala"), ("MP", "Madhya Pradesh"),
            ("MH", "Maharashtra"), ("MN", "Manipur"), ("ML", "Meghalaya"),
            ("MZ", "Mizoram"), ("NL", "Nagaland"), ("OR", "Odisha"), ("PB", "Punjab"),
            ("RJ", "Rajasthan"), ("SK", "Sikkim"), ("TN", "Tamil Nadu"),
            ("TG", "Telangana"), ("TR", "Tripura"), ("UP", "Uttar Pradesh"),
            ("UK", "Uttarakhand"), ("WB", "West Bengal"),
            ("AN", "Andaman and Nicobar Islands"), ("CH", "Chandigarh"),
            ("DN", "Dadra and Nagar Haveli and Daman and Diu"), ("DL", "Delhi"),
            ("JK", "Jammu and Kashmir"), ("LA", "Ladakh"), ("LD", "Lakshadweep"),
            ("PY", "Puducherry"),
        ],
    },
    "contact.locationCountry": {
        "label": "Country",
        "type": "string",
        "options": [("IN", "India")],
    },
    "contact.preferredLanguage": {
        "label": "Preferred Language",
        "type": "enum",
        "options": [
            ("hi", "Hindi"), ("en", "English"), ("bn", "Bengali"), ("te", "Telugu"),
            ("mr", "Marathi"), ("ta", "Tamil"), ("ur", "Urdu"), ("gu", "Gujarati"),
            ("kn", "Kannada"), ("ml", "Malayalam"), ("pa", "Punjabi"), ("as", "Assamese"),
            ("or", "Odia"), ("ks", "Kashmiri"), ("sd", "Sindhi"), ("sa", "Sanskrit"),
        ],
    },
    "contact.whatsappOptInStatus": {
        "label": "WhatsApp Opt-in Status",
        "type": "enum",
        "options": [
            ("opted_in", "Opted In"),
            ("opted_out", "Opted Out"),
            ("pending", "Pending"),
            ("failed", "Failed"),
        ],
    },
    "contact.communicationConsent": {"label": "Communication Consent", "type": "boolean"},

    # Engagement attributes
    "engagement.lastEngagementDate": {"label": "Last Engagement Date", "type": "date"},
    "engagement.lastActiveAt": {"label": "Last Active At", "type": "date"},
    "engagement.lastInteractionDate": {"label": "Last Interaction Date", "type": "date"},
    "engagement.engagementRate": {
        "label": "Engagement Rate", "type": "number", "control": _SCORE_SLIDER,
    },

    # Wellbeing attributes
    "wellbeing.wellbeingScore": {
        "label": "Wellbeing Score", "type": "number", "control": _SCORE_SLIDER,
    },
    "wellbeing.overallWellbeingScore": {
        "label": "Overall Wellbeing Score", "type": "number", "control": _SCORE_SLIDER,
    },
    "wellbeing.lastWellbeingCheckDate": {"label": "Last Wellbeing Check Date", "type": "date"},
    "wellbeing.lastWellbeingAssessmentDate": {
        "label": "Last Wellbeing Assessment Date", "type": "date",
    },

    # Gamification attributes
    "gamification.pointsBalance": {"label": "Points Balance", "type": "number"},
    "gamification.badgesEarnedCount": {"label": "Badges Earned Count", "type": "number"},
}

# Substrings of string attribute keys that default to "contains" instead of "equals"
NAME_LIKE_MARKERS = ("name", "Name", "title", "Title", "City", "Country", "department")
