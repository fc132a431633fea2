"""View logic: filtering, day layout, render pipeline and the view controller."""
