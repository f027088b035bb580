"""
Fixed vocabularies the model must choose from for categories and allergens.
"""

FOOD_CATEGORIES = (
    "American Indian/Alaska Native Foods",
    "Apple juice",
    "Apples",
    "Avocado",
    "Baby Foods",
    "Baby food: cereals",
    "Baby food: fruit",
    "Baby food: meat and dinners",
    "Baby food: mixtures",
    "Baby food: snacks and sweets",
    "Baby food: vegetables",
    "Baby food: yogurt",
    "Baby juice",
    "Baby water",
    "Bacon",
    "Bagels and English muffins",
    "Baked Products",
    "Bananas",
    "Bean",
    "Beans",
    "Beef",
    "Beef Products",
    "Beer",
    "Beverages",
    "Biscuits",
    "Blueberries and other berries",
    "Bottled water",
    "Breakfast Cereals",
    "Broccoli",
    "Burgers",
    "Burritos and tacos",
    "Butter and animal fats",
    "Cabbage",
    "Cakes and pies",
    "Candy containing chocolate",
    "Candy not containing chocolate",
    "Carrots",
    "Cereal Grains and Pasta",
    "Cereal bars",
    "Cheese",
    "Cheese sandwiches",
    "Chicken",
    "Chicken fillet sandwiches",
    "Chicken patties",
    "Citrus fruits",
    "Citrus juice",
    "Coffee",
    "Cold cuts and cured meats",
    "Coleslaw",
    "Cookies and brownies",
    "Corn",
    "Cottage/ricotta cheese",
    "Crackers",
    "Cream and cream substitutes",
    "Cream cheese",
    "Dairy and Egg Products",
    "Deli and cured meat sandwiches",
    "Diet soft drinks",
    "Diet sport and energy drinks",
    "Dips",
    "Doughnuts",
    "Dried fruits",
    "Egg rolls",
    "Egg/breakfast sandwiches",
    "Eggs and omelets",
    "Enhanced water",
    "Entrees",
    "Fast Foods",
    "Fats and Oils",
    "Finfish and Shellfish Products",
    "Fish",
    "Flavored milk",
    "Flavored or carbonated water",
    "Formula",
    "Frankfurter sandwiches",
    "Frankfurters",
    "French fries and other fried white potatoes",
    "French toast",
    "Fried rice and lo/chow mein",
    "Fried vegetables",
    "Fruit drinks",
    "Fruits and Fruit Juices",
    "Gelatins",
    "Grapes",
    "Greek",
    "Grits and other cooked cereals",
    "Ground beef",
    "Ice cream and frozen dairy desserts",
    "Jams",
    "Lamb",
    "Legumes and Legume Products",
    "Lettuce and lettuce salads",
    "Liquor and cocktails",
    "Liver and organ meats",
    "Macaroni and cheese",
    "Mango and papaya",
    "Margarine",
    "Mashed potatoes and white potato mixtures",
    "Mayonnaise",
    "Meals",
    "Meat and BBQ sandwiches",
    "Meat mixed dishes",
    "Melons",
    "Milk",
    "Milk shakes and other dairy drinks",
    "Mustard and other condiments",
    "Nachos",
    "Not included in a food category",
    "Nut and Seed Products",
    "Nutrition bars",
    "Nutritional beverages",
    "Nuts and seeds",
    "Oatmeal",
    "Olives",
    "Onions",
    "Other Mexican mixed dishes",
    "Other dark green vegetables",
    "Other diet drinks",
    "Other fruit juice",
    "Other fruits and fruit salads",
    "Other red and orange vegetables",
    "Other starchy vegetables",
    "Other vegetables and combinations",
    "Pancakes",
    "Pasta",
    "Pasta mixed dishes",
    "Pasta sauces",
    "Peaches and nectarines",
    "Peanut butter and jelly sandwiches",
    "Pears",
    "Pineapple",
    "Pizza",
    "Plant-based milk",
    "Plant-based yogurt",
    "Popcorn",
    "Pork",
    "Pork Products",
    "Potato chips",
    "Poultry Products",
    "Poultry mixed dishes",
    "Pretzels/snack mix",
    "Protein and nutritional powders",
    "Pudding",
    "Ramen and Asian broth-based soups",
    "Ready-to-eat cereal",
    "Restaurant Foods",
    "Rice",
    "Rice mixed dishes",
    "Rolls and buns",
    "Salad dressings and vegetable oils",
    "Saltine crackers",
    "Sauces",
    "Sausages",
    "Sausages and Luncheon Meats",
    "Seafood mixed dishes",
    "Seafood sandwiches",
    "Shellfish",
    "Smoothies and grain drinks",
    "Snacks",
    "Soft drinks",
    "Soups",
    "Soy and meat-alternative products",
    "Soy-based condiments",
    "Spices and Herbs",
    "Spinach",
    "Sport and energy drinks",
    "Stir-fry and soy-based sauce mixtures",
    "Strawberries",
    "String beans",
    "Sugar substitutes",
    "Sugars and honey",
    "Sweets",
    "Tap water",
    "Tea",
    "Tomato-based condiments",
    "Tomatoes",
    "Tortilla",
    "Tortillas",
    "Turkey",
    "Turnovers and other grain-based items",
    "Veal",
    "Vegetable dishes",
    "Vegetable juice",
    "Vegetable sandwiches/burgers",
    "Vegetables and Vegetable Products",
    "Vegetables on a sandwich",
    "White potatoes",
    "Wine",
    "Yeast breads",
    "Yogurt",
    "and Game Products",
    "and Gravies",
    "and Side Dishes",
    "baked or boiled",
    "broth-based",
    "cooked grains",
    "corn",
    "cream-based",
    "duck",
    "dumplings",
    "excludes ground",
    "excludes macaroni and cheese",
    "excludes saltines",
    "game",
    "goat",
    "gravies",
    "higher sugar (>21.2g/100g)",
    "ices",
    "legume dishes",
    "legumes",
    "lower sugar (=<21.2g/100g)",
    "lowfat",
    "muffins",
    "non-lettuce salads",
    "nonfat",
    "noodles",
    "nuggets and tenders",
    "other chips",
    "other poultry",
    "other sauces",
    "pastries",
    "pea",
    "peas",
    "pickled vegetables",
    "pickles",
    "prepared from powder",
    "quick breads",
    "ready-to-feed",
    "reduced fat",
    "regular",
    "sorbets",
    "sour cream",
    "sushi",
    "sweet rolls",
    "syrups",
    "tomato-based",
    "toppings",
    "waffles",
    "whipped cream",
    "whole",
    "whole pieces",
)

ALLERGENS = (
    "Celery",
    "Cereals containing gluten",
    "Cereals containing gluten (barley)",
    "Cereals containing gluten (oats)",
    "Cereals containing gluten (rye)",
    "Crustaceans",
    "Eggs",
    "Fish",
    "Low Sodium",
    "Milk",
    "Molluscs",
    "Mustard",
    "Nuts",
    "Nuts (Brazil nuts)",
    "Nuts (almonds)",
    "Nuts (cashews)",
    "Nuts (chestnuts)",
    "Nuts (coconut)",
    "Nuts (hazelnuts)",
    "Nuts (macadamia nuts)",
    "Nuts (pecans)",
    "Nuts (pine nuts)",
    "Nuts (pistachio nuts)",
    "Nuts (walnuts)",
    "Peanuts",
    "Sesame seeds",
    "Soybeans",
    "Sulphur dioxide/sulphites",
)

FOOD_CATEGORY_SET = frozenset(FOOD_CATEGORIES)
ALLERGEN_SET = frozenset(ALLERGENS)
