"""
Canned study material returned in mock mode and whenever generation fails.
"""
from __future__ import annotations

from typing import List

from flashquiz.schemas import Flashcard, QuizQuestion

SAMPLE_FLASHCARDS = [
    ("What is machine learning?",
     "A subset of AI that enables systems to learn from data and improve from experience without being "
     "explicitly programmed."),
    ("What is the difference between supervised and unsupervised learning?",
     "Supervised learning uses labeled data to train models, while unsupervised learning finds patterns in "
     "unlabeled data."),
    ("What is a neural network?",
     "A computing system inspired by biological neural networks, consisting of interconnected nodes that "
     "process information."),
    ("What is deep learning?",
     "A subset of machine learning that uses multi-layered neural networks to learn complex patterns from "
     "large amounts of data."),
    ("What is overfitting?",
     "When a model learns the training data too well, including noise, resulting in poor performance on new, "
     "unseen data."),
    ("What is a training dataset?",
     "A collection of labeled examples used to teach a machine learning model to make predictions."),
    ("What is gradient descent?",
     "An optimization algorithm used to minimize the loss function by iteratively adjusting model parameters."),
    ("What is a loss function?",
     "A function that measures how well a model's predictions match the actual values; the goal is to "
     "minimize this."),
    ("What is cross-validation?",
     "A technique to evaluate model performance by dividing data into subsets for training and testing "
     "multiple times."),
    ("What is feature engineering?",
     "The process of selecting, transforming, and creating input features to improve model performance."),
]

SAMPLE_QUIZ = [
    ("Which of the following best describes machine learning?",
     ["A programming language for AI", "A subset of AI that enables systems to learn from data",
      "A database management system", "A type of computer hardware"],
     "A subset of AI that enables systems to learn from data",
     "Machine learning is a branch of artificial intelligence that focuses on building systems that learn "
     "from data."),
    ("What type of learning uses labeled data?",
     ["Unsupervised learning", "Reinforcement learning", "Supervised learning", "Transfer learning"],
     "Supervised learning",
     "Supervised learning algorithms learn from labeled training data to make predictions on new data."),
    ("What is the purpose of a validation dataset?",
     ["To train the model", "To tune hyperparameters and prevent overfitting", "To store the final model",
      "To visualize the data"],
     "To tune hyperparameters and prevent overfitting",
     "Validation data helps optimize model parameters without using the test set."),
    ("Which algorithm is commonly used for classification tasks?",
     ["Linear Regression", "K-Means Clustering", "Random Forest", "Principal Component Analysis"],
     "Random Forest",
     "Random Forest is an ensemble method commonly used for classification problems."),
    ("What does CNN stand for in deep learning?",
     ["Computer Neural Network", "Convolutional Neural Network", "Connected Node Network",
      "Centralized Neuron Network"],
     "Convolutional Neural Network",
     "CNNs are specialized neural networks designed for processing structured grid data like images."),
    ("What is the main purpose of dropout in neural networks?",
     ["To speed up training", "To reduce overfitting", "To increase model complexity",
      "To improve accuracy on training data"],
     "To reduce overfitting",
     "Dropout randomly disables neurons during training so the model does not depend on specific neurons."),
    ("Which metric is most appropriate for imbalanced classification?",
     ["Accuracy", "F1 Score", "Training Loss", "Learning Rate"],
     "F1 Score",
     "F1 Score balances precision and recall, making it better suited for imbalanced datasets."),
    ("What is transfer learning?",
     ["Moving data between databases", "Using a pre-trained model for a new task",
      "Transferring files over a network", "Converting data formats"],
     "Using a pre-trained model for a new task",
     "Transfer learning leverages knowledge from one domain to improve learning in another domain."),
    ("What is the vanishing gradient problem?",
     ["Gradients become too large during training", "Gradients become too small during backpropagation",
      "The model becomes invisible", "Loss function disappears"],
     "Gradients become too small during backpropagation",
     "In deep networks, gradients can become extremely small, making it difficult to update early layers."),
    ("Which activation function is most commonly used in hidden layers?",
     ["Sigmoid", "Softmax", "ReLU", "Linear"],
     "ReLU",
     "ReLU is preferred because it helps mitigate the vanishing gradient problem."),
]


def mock_flashcards(count: int = 10) -> List[Flashcard]:
    """Up to ``count`` sample cards; never padded past the sample pool."""
    return [Flashcard(question=q, answer=a) for q, a in SAMPLE_FLASHCARDS[:max(count, 0)]]


def mock_quiz(count: int = 10) -> List[QuizQuestion]:
    return [
        QuizQuestion(question=q, options=list(options), correct_answer=answer, explanation=explanation)
        for q, options, answer, explanation in SAMPLE_QUIZ[:max(count, 0)]
    ]


def mock_items(kind: str, count: int):
    return mock_flashcards(count) if kind == "flashcards" else mock_quiz(count)
