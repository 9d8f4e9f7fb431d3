"""Built-in question graphs.

discovery: a new lead, learning what they need, when, and for how much.
post_tour: a prospect who just toured a property.

Edges route unhappy or price-sensitive answers to follow-ups and let
uninterested prospects end early.
"""

DISCOVERY_GRAPH = {
    "name": "discovery",
    "start": "property_type",
    "questions": [
        {
            "id": "property_type",
            "text": (
                "Hi{% if lead and lead.first_name %} {{ lead.first_name }}{% endif %}! "
                "What type of home are you looking for?"
            ),
            "kind": "choice",
            "options": ["Apartment", "House", "Townhouse", "Condo", "Not sure yet"],
            "default_next": "move_in_timeline",
        },
        {
            "id": "move_in_timeline",
            "text": "When are you hoping to move in?",
            "kind": "choice",
            "options": ["Immediately", "Within 30 days", "Within 3 months", "Just browsing"],
            "edges": {"Just browsing": "timeline_follow_up"},
            "default_next": "budget",
            "captures": ["move_in"],
        },
        {
            "id": "timeline_follow_up",
            "text": "No rush. What would help you decide when the time is right to move?",
            "kind": "open",
            "default_next": "budget",
            "captures": ["move_in"],
        },
        {
            "id": "budget",
            "text": "What monthly rent range works for you?",
            "kind": "choice",
            "options": ["Under $1,500", "$1,500 - $2,000", "$2,000 - $2,500", "$2,500+"],
            "default_next": "amenities",
            "captures": ["budget"],
        },
        {
            "id": "amenities",
            "text": "Which amenities matter most to you (parking, laundry, pets, gym)?",
            "kind": "open",
            "default_next": "tour_interest",
        },
        {
            "id": "tour_interest",
            "text": (
                "Would you like to tour "
                "{% if property %}{{ property.name }}{% else %}the property{% endif %}?"
            ),
            "kind": "choice",
            "options": ["Yes, this week", "Yes, next week", "Not yet"],
            "edges": {"Not yet": None},
            "default_next": "tour_time",
        },
        {
            "id": "tour_time",
            "text": "What day and time works best for your tour?",
            "kind": "open",
        },
    ],
}

POST_TOUR_GRAPH = {
    "name": "post_tour",
    "start": "tour_rating",
    "questions": [
        {
            "id": "tour_rating",
            "text": (
                "Thanks for touring "
                "{% if property %}{{ property.name }}{% else %}the property{% endif %}"
                "{% if lead and lead.first_name %}, {{ lead.first_name }}{% endif %}! "
                "How would you rate the home overall?"
            ),
            "kind": "choice",
            "options": ["Excellent", "Good", "Fair", "Poor"],
            "edges": {"Fair": "concerns", "Poor": "concerns"},
            "default_next": "liked_most",
            "captures": ["interest"],
        },
        {
            "id": "liked_most",
            "text": "What did you like most about it?",
            "kind": "open",
            "default_next": "concerns",
        },
        {
            "id": "concerns",
            "text": "Is there anything that gave you pause or concerned you?",
            "kind": "open",
            "default_next": "fair_rent",
        },
        {
            "id": "fair_rent",
            "text": (
                "{% if property and property.rent %}The rent is listed at "
                "${{ '{:,.0f}'.format(property.rent) }} a month. {% endif %}"
                "What would you consider a fair monthly rent?"
            ),
            "kind": "choice",
            "options": [
                "As listed",
                "10% less",
                "15% less",
                "20% less",
                "Would need significant reduction",
            ],
            "edges": {"As listed": "move_in_date"},
            "default_next": "pricing_follow_up",
        },
        {
            "id": "pricing_follow_up",
            "text": "What monthly rent would make you more interested in this home?",
            "kind": "choice",
            "options": ["$100 less", "$200 less", "$300+ less", "Price isn't the main issue"],
            "default_next": "move_in_date",
        },
        {
            "id": "move_in_date",
            "text": "When would you like to move in?",
            "kind": "open",
            "captures": ["move_in"],
        },
    ],
}

BUILTIN_GRAPHS = {
    "discovery": DISCOVERY_GRAPH,
    "post_tour": POST_TOUR_GRAPH,
}
