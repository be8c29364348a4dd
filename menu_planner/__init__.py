"""Menu planner: period menus, meal slots, pantry and active products."""
