import pandas as pd
import numpy as np
import time
from cartpy import CartClassifier

# Generate synthetic data
n_samples = 1000
rng = np.random.RandomState(42)
# Feature 1: "City" (High Cardinality - 20 categories)
cities = [f"City_{i}" for i in range(20)]
# Feature 2: "Age" (Numeric, with some missing values)
ages = rng.randint(18, 70, size=n_samples).astype(float)
ages[rng.rand(n_samples) < 0.05] = np.nan

# Assign target based on groups of cities
X_cat = rng.choice(cities, size=n_samples)
y = []
for city, age in zip(X_cat, ages):
    city_idx = int(city.split('_')[1])
    prob = 0.8 if city_idx < 10 else 0.2
    # Add some noise/interaction with age
    if age > 50: prob += 0.1
    y.append("yes" if rng.rand() < prob else "no")

df_syn = pd.DataFrame({'City': X_cat, 'Age': ages})
y_syn = np.array(y)

print("Data Sample:")
print(df_syn.head())

clf = CartClassifier(feature_names=list(df_syn.columns), categorical_features=["City"],
                     num_folds_pruning=5, use_one_se=True)

print("Starting fit...")
t0 = time.time()
clf.fit(df_syn.values, y_syn)
print(f"CART Training Time: {time.time() - t0:.4f}s")
clf.print_tree()

path = clf.cost_complexity_path()
print(pd.DataFrame(path))
print(f"selected position {clf.best_index_} (alpha={clf.alpha_:.6f}, {clf.get_n_leaves()} leaves)")
try:
    clf.export_graphviz("synthetic_tree", format="dot")
except RuntimeError as e:
    print(f"Skipping Graphviz export: {e}")
