import numpy as np
from cartpy import CartClassifier

def test_classifier_smoke():
    X = np.array([[1,'A'],[2,'A'],[3,'B'],[4,'B']], dtype=object)
    y = np.array([0,0,1,1])
    clf = CartClassifier(categorical_features=[1], feature_names=['num','cat'], prune=False, min_num_obj=1)
    clf.fit(X,y)
    _ = clf.predict(X)
    _ = clf.export_rules(feature_names=['num','cat'], class_names=['no','yes'])

def test_classifier_pruned_smoke():
    rng = np.random.RandomState(0)
    X = rng.normal(size=(60, 2))
    y = (X[:, 0] > 0).astype(int)
    clf = CartClassifier(num_folds_pruning=3).fit(X, y)
    _ = clf.predict(X)
    _ = clf.cost_complexity_path()
